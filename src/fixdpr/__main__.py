from fixdpr.cli import main

raise SystemExit(main())
