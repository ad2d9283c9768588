from __future__ import annotations

from cadence_coach.app import main

if __name__ == "__main__":
    raise SystemExit(main())
