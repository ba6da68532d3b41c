# Import all the models, so that Base has them before being
# imported by create_all
from sharezone.db.base_class import Base  # noqa
from sharezone.models.zone import Zone  # noqa
from sharezone.models.upload import UploadBatch, FileRecord  # noqa
from sharezone.models.user_session import UserSession  # noqa
from sharezone.models.chat import ChatMessage  # noqa
