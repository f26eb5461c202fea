from blinker import Namespace

qahub_signals = Namespace()

# Sent with path=<logical page path> after a write that makes rendered content stale.
content_invalidated = qahub_signals.signal('content-invalidated')

COLLECTION_PATH = '/collection'


def profile_path(external_id):
    return f"/profile/{external_id}"


def invalidate_path(sender, path):
    if path:
        content_invalidated.send(sender, path=path)
