import sys

from alert_engine.main import main

sys.exit(main())
