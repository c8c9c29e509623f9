"""Entry point: python -m nearfix replay TRACE"""

from nearfix.main import main

if __name__ == "__main__":
    main()
