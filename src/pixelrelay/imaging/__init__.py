"""Image decoding, transformation and encoding.

Modules
-------
codec
    Pillow-backed decode/resize/crop/encode functions.
transcoder
    :class:`Transcoder` and the :class:`Resize` / :class:`Crop` operations.
"""
