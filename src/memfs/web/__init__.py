"""Web terminal for memfs.

Serves the same shell the ``memfs`` REPL runs, over HTTP, so the file
store can be driven from a browser tab.  Flask is only needed here, so
it ships as the ``web`` extra (``pip install memfs[web]``) and the
``memfs-web`` command starts the development server.

One process holds one session: the snapshot is loaded when the app is
created and written once, when the browser sends ``exit``.
"""
