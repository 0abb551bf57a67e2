"""
Device side of review sync.

Responsibilities:
- Keep reviews and the device user in a local SQLite database, with
  placeholder ids until the server assigns real ones.
- Track what still needs pushing (``synced_at``) and soft deletes.
- Talk to the sync server over HTTP and reconcile its answer locally.
- Run one sync at a time in the background, cancelling superseded runs.
"""
