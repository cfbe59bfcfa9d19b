from zonectl.cli import main

raise SystemExit(main())
