from django.urls import path

from . import views

urlpatterns = [
    path("properties/", views.PropertyList.as_view(), name="property-list"),
    path("properties/<int:pk>/", views.PropertyDetail.as_view(), name="property-detail"),
    path("properties/<int:pk>/tasks/", views.PropertyTasks.as_view(), name="property-tasks"),
    path("properties/<int:pk>/jobs/", views.PropertyJobs.as_view(), name="property-jobs"),
    path("properties/<int:pk>/timeline/", views.PropertyTimeline.as_view(), name="property-timeline"),
    path("tasks/", views.TaskList.as_view(), name="task-list"),
    path("tasks/<int:pk>/", views.TaskDetail.as_view(), name="task-detail"),
    path("jobs/", views.JobList.as_view(), name="job-list"),
    path("jobs/<int:pk>/", views.JobDetail.as_view(), name="job-detail"),
]
