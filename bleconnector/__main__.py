"""Run the command line front end with ``python -m bleconnector``."""

from bleconnector.cli import main

if __name__ == "__main__":
    main()
