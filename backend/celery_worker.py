from __future__ import annotations

from shareportal.worker import celery_app


def main() -> None:
    # Embedded beat keeps the maintenance schedule running with a single process.
    celery_app.worker_main(argv=["worker", "--beat", "--loglevel=info", "-P", "solo"])


if __name__ == "__main__":
    main()
