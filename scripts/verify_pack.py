import json
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from memory_etl.config import get_settings
from memory_etl.logging_config import configure_from_settings
from memory_etl.verification.verifier import verify

# stdout carries the JSON result
configure_from_settings(get_settings(), use_stderr=True)


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: python scripts/verify_pack.py <pack_dir> [token]")
        sys.exit(1)

    token = sys.argv[2] if len(sys.argv) == 3 else None
    result = verify(Path(sys.argv[1]), token)
    print(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.ok else 2)


if __name__ == "__main__":
    main()
