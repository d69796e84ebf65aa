import sys

from mail_triage.cli import main

sys.exit(main())
