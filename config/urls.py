from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    # Admin site
    path('admin/', admin.site.urls),

    # Academic app (current period, transitions, progression)
    path('academics/', include('apps.academics.urls')),

    # Audit app (transition records)
    path('audit/', include('apps.audit.urls')),
]

# Admin site customization
admin.site.site_header = 'Academic Period Administration'
admin.site.site_title = 'Academic Period Admin'
admin.site.index_title = 'Academic calendar, registry and identifiers'
