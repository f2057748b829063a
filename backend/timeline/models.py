from django.db import models


class Property(models.Model):
    STATUS_CHOICES = [
        ("planning", "Planning"),
        ("renovation", "Renovation"),
        ("ready_to_sell", "Ready to sell"),
        ("sold", "Sold"),
    ]

    address = models.CharField(max_length=255)
    city = models.CharField(max_length=100, blank=True)
    postcode = models.CharField(max_length=20, blank=True)
    type = models.CharField(max_length=100)  # e.g. "2-bed apartment"
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    renovation_budget = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="planning")
    notes = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "properties"

    def __str__(self):
        return self.address


class Task(models.Model):
    CATEGORY_CHOICES = [
        ("general", "General"),
        ("renovation", "Renovation"),
        ("legal", "Legal"),
        ("surveying", "Surveying"),
        ("estate_agent", "Estate agent"),
    ]
    STATUS_CHOICES = [
        ("not_started", "Not started"),
        ("in_progress", "In progress"),
        ("completed", "Completed"),
    ]
    DIRECTION_CHOICES = [
        ("before", "Before"),
        ("after", "After"),
    ]

    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="tasks")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default="general")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="not_started")
    quotable = models.BooleanField(default=False)
    due_date = models.DateTimeField(null=True, blank=True)
    depends_on_task = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="dependents"
    )
    relative_due_days = models.PositiveIntegerField(null=True, blank=True)  # None means "immediately"
    relative_direction = models.CharField(max_length=6, choices=DIRECTION_CHOICES, default="after")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return self.title


class Job(models.Model):
    TYPE_CHOICES = [
        ("general", "General"),
        ("contractor_work", "Contractor work"),
        ("phone_call", "Phone call"),
        ("email", "Email"),
        ("meeting", "Meeting"),
        ("document_review", "Document review"),
    ]
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("in_progress", "In progress"),
        ("completed", "Completed"),
    ]

    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="jobs")
    property = models.ForeignKey(Property, on_delete=models.CASCADE, related_name="jobs")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="general")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    due_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return self.name
