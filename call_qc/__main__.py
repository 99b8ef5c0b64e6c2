"""Allow ``python -m call_qc``."""

from call_qc.cli import main

raise SystemExit(main())
