"""Allow ``python -m cdnspeed``."""

from cdnspeed.cli import main

main()
