from sponsor_raffle.cli import main

raise SystemExit(main())
