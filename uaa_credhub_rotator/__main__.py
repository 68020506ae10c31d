import sys

from uaa_credhub_rotator.cli import main

sys.exit(main())
