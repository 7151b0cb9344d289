# Local blob server: python blobs.py --directory ./blobs-data --token secret
import sys

from blobs_lib.server.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
