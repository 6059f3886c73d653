from deployhook.cli import main

raise SystemExit(main())
