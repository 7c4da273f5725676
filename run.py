# run.py
import os
import sys
from gunicorn import util
from gunicorn.app.base import BaseApplication


class ArchiverApplication(BaseApplication):
    def __init__(self, app_uri, options):
        self.app_uri = app_uri
        self.options = options
        super().__init__()

    def load_config(self):
        for key, value in self.options.items():
            self.cfg.set(key, value)

    def load(self):
        return util.import_app(self.app_uri)


def recover_jobs(server):
    """Runs once in the master before any worker starts."""
    from chat_archiver.dependencies import get_store

    store = get_store()
    store.initialize()
    count = store.mark_stale_jobs_interrupted()
    server.log.info("Marked %d stale running job(s) as interrupted", count)
    # Workers are forked from the master and must open their own connections
    store.engine.dispose()


def build_options():
    # A scrape runs inside the request, so keep workers alive for long passes
    return {
        "bind": os.getenv("BIND", "0.0.0.0:8000"),
        "workers": int(os.getenv("WORKERS", "2")),
        "worker_class": "uvicorn.workers.UvicornWorker",
        "timeout": int(os.getenv("WORKER_TIMEOUT", "3600")),
        "proc_name": "chat_archiver",
        "on_starting": recover_jobs,
    }


def main():
    sys.path.insert(0, os.getcwd())
    ArchiverApplication("chat_archiver.main:app", build_options()).run()

if __name__ == "__main__":
    main()
