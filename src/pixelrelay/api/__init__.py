"""PixelRelay — FastAPI delivery layer.

Modules
-------
main
    Application factory, image routes and the ``main()`` CLI entry point.
"""
