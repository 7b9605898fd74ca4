from netflood.cli import main

raise SystemExit(main())
