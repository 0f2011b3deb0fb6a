"""Note service: plain content items with no extra fields."""
from blog_api.models import Note
from blog_api.services.content_service import ContentService


class NotesService(ContentService):
    model = Note
    label = "Note"
    namespace = "notes"
    item_prefix = "note"
    update_error = "Ошибка при обновлении заметки"
