"""Run the queue bridge API (and the consumer when a world adapter is configured)."""

from queuebridge.main import main


if __name__ == "__main__":
    main()
