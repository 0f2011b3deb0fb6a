# Services package.
#
#   content_service : generic lifecycle + cache-aside logic for content items
#   note_service    : NotesService (title, content, theme)
#   post_service    : PostsService (adds ordered tags and an image)
#   query           : listing filter / sort / pagination composition
#   media           : image storage for uploads
#   auth_service    : user directory and login
#
# Content services are instantiated per request with the request's
# AsyncSession and the application-wide CacheManager.  Mutations commit
# before invalidating the cache so a reader that misses afterwards sees
# the new row.
