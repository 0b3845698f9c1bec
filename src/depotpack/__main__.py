from depotpack.cli import main

raise SystemExit(main())
