"""Enclosure download and audio inspection."""

from podcasts.audio.downloader import EnclosureDownloader
from podcasts.audio.duration import probe_duration
from podcasts.audio.enclosures import EnclosureStore, extension_for_url

__all__ = ["EnclosureDownloader", "EnclosureStore", "extension_for_url", "probe_duration"]
