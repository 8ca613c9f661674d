"""Run the container supervisor service."""

from docksupervisor.__main__ import main

if __name__ == "__main__":
    main()
