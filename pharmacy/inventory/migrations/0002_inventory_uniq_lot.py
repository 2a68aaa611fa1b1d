import datetime
import django.db.models.functions.comparison
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('inventory', '0001_initial'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='inventory',
            constraint=models.UniqueConstraint(
                models.F('product'),
                models.F('product_unit'),
                django.db.models.functions.comparison.Coalesce('batch_number', models.Value('')),
                django.db.models.functions.comparison.Coalesce('expiry_date', models.Value(datetime.date(1, 1, 1))),
                name='uniq_inventory_lot',
            ),
        ),
    ]
