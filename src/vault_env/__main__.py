from __future__ import annotations

import sys

from vault_env.cli import main

sys.exit(main())
