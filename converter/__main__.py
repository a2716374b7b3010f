import sys

from converter.pipeline import main

sys.exit(main())
