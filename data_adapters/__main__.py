import sys

from data_adapters.cli import main


sys.exit(main())
