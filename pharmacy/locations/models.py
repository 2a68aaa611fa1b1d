from django.db import models


class Cabinet(models.Model):
    """Storage cabinet, the top of the Cabinet > Row > Compartment hierarchy"""
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'cabinets'
        ordering = ['name']


class Row(models.Model):
    """Shelf row inside a cabinet"""
    cabinet = models.ForeignKey(Cabinet, on_delete=models.PROTECT, related_name='rows')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.cabinet.name} / {self.name}"

    class Meta:
        db_table = 'cabinet_rows'
        ordering = ['name']


class Compartment(models.Model):
    """Compartment of a row; products are stored here"""
    row = models.ForeignKey(Row, on_delete=models.PROTECT, related_name='compartments')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.row} / {self.name}"

    @property
    def location_label(self):
        return f"{self.row.cabinet.name} > {self.row.name} > {self.name}"

    class Meta:
        db_table = 'compartments'
        ordering = ['name']
