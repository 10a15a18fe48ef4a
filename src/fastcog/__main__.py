"""Entry point for the fastcog command line."""

from fastcog.ingest.__main__ import main

if __name__ == "__main__":
    main()
