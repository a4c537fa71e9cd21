#!/usr/bin/env python3
"""TaskFlow CLI entrypoint.

See ``taskflow/cli.py`` for the available commands:

    python main.py run --request request.yaml --project ./workspace
    python main.py models
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from taskflow.cli import main

if __name__ == "__main__":
    sys.exit(main())
