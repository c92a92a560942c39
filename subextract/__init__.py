"""subextract: extracción de subtítulos embebidos que faltan en la caché de Jellyfin."""

__version__ = "0.1.0"
