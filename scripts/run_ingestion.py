import json
import sys
from pathlib import Path

# Setup path so we can import memory_etl
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from memory_etl.config import get_settings
from memory_etl.exceptions import IngestionException
from memory_etl.ingestion.pipeline import ingest
from memory_etl.logging_config import configure_from_settings, get_logger, new_run_id, run_context

configure_from_settings(get_settings())
log = get_logger(__name__)


def main():
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    force = "--force" in sys.argv[1:]

    if len(args) != 2:
        print("Usage: python scripts/run_ingestion.py <input_dir> <out_dir> [--force]")
        sys.exit(1)

    with run_context(ingestion_run_id=new_run_id()):
        try:
            report = ingest(Path(args[0]), Path(args[1]), force=force, log=log)
        except IngestionException as e:
            log.error("ingestion_failed", error=str(e), error_type=type(e).__name__)
            sys.exit(2)

    print(json.dumps(report.manifest.counts.as_dict(), indent=2))
    if report.failures:
        print(f"{report.files_failed} file(s) could not be parsed and will be retried next run:")
        for failure in report.failures:
            print(f"  {failure['path']}: {failure['cause']}")


if __name__ == "__main__":
    main()
