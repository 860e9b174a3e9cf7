import sys

from bitmap_prep.main import run

sys.exit(run())
