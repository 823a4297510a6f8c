from django.db import models


class CustomRequest(models.Model):
    """A buyer asking for a template that is not in the catalog yet."""

    name = models.CharField(max_length=120)
    email = models.EmailField()
    template_description = models.TextField(max_length=2000)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"CustomRequest #{self.id} - {self.name} <{self.email}>"
