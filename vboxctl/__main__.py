from vboxctl.cli import main

raise SystemExit(main())
