import sys

from candlesync.main import main

sys.exit(main())
