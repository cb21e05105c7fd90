import sys

from wallet_persona.cli import main

sys.exit(main())
