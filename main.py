"""Run the relay from a source checkout: ``python main.py --port 8080``."""

from firehose_relay.service import main

if __name__ == "__main__":
    main()
