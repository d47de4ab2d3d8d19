"""Allow ``python -m docurag.cli`` execution."""

import sys

from docurag.cli.commands import main

sys.exit(main())
