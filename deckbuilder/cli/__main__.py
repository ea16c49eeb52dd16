"""Allow ``python -m deckbuilder.cli`` as a shortcut for the build command."""

import sys

from deckbuilder.cli.build import main

sys.exit(main())
