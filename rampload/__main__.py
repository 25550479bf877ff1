from rampload.cli import main

raise SystemExit(main())
