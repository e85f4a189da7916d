import sys

from pano2pinholes.cli import main

sys.exit(main())
