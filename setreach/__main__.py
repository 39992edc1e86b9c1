"""
setreach package entry point.

Allows running setreach as a module:
    python -m setreach reach request.yaml
"""

from setreach.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
