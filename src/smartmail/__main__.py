from smartmail.cli import main

raise SystemExit(main())
