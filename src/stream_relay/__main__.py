import sys

from stream_relay.cli import main

sys.exit(main())
