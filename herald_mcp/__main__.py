from herald_mcp.cli import main

raise SystemExit(main())
