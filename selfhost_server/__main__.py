import sys

from selfhost_server.server import main

sys.exit(main())
