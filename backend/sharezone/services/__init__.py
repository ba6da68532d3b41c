from .hub import BroadcastHub
from .reaper import ExpiryReaper
from .registry import ZoneRegistry, ZoneView
from .uploads import DownloadDescriptor, IncomingFile, UploadCoordinator
from .chat import ChatService
