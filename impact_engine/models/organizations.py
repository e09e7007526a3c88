from django.db import models


class Organization(models.Model):
    """ A company owning products, facilities and organisation-specific reference data. """
    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(models.Model):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, blank=True)
    functional_unit = models.CharField(max_length=50, default='unit', help_text="Unit one assessment result refers to (e.g., unit, kg, litre)")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [['organization', 'name']]
        ordering = ['organization', 'name']

    def __str__(self):
        return f"{self.name} ({self.organization})"


class Facility(models.Model):
    """ A production site; contract manufacturers share one facility across several clients. """
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='facilities', help_text="Operator of the facility")
    name = models.CharField(max_length=255)
    country_code = models.CharField(max_length=10, blank=True)
    is_contract_manufacturer = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Facilities"
        ordering = ['name']

    def __str__(self):
        return self.name
