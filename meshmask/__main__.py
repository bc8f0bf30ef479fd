import sys

from meshmask.main import main

sys.exit(main())
