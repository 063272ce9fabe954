import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('permissions', models.JSONField(blank=True, default=dict)),
            ],
        ),
        migrations.CreateModel(
            name='Table',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=50)),
                ('status', models.CharField(choices=[('FREE', 'Free'), ('OCCUPIED', 'Occupied'), ('CLOSED', 'Closed')], default='FREE', max_length=10)),
                ('customer_id', models.CharField(blank=True, max_length=64, null=True)),
                ('note', models.TextField(blank=True, null=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tables', to='floor.tenant')),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='MenuItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('station', models.CharField(choices=[('HOT', 'Hot'), ('COLD', 'Cold'), ('DESSERT', 'Dessert'), ('BAR', 'Bar')], default='HOT', max_length=10)),
                ('is_available', models.BooleanField(default=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='menu_items', to='floor.tenant')),
            ],
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('waiter_id', models.CharField(max_length=64)),
                ('customer_id', models.CharField(blank=True, max_length=64, null=True)),
                ('status', models.CharField(choices=[('NEW', 'New'), ('READY', 'Ready'), ('SERVED', 'Served'), ('CLOSED', 'Closed')], default='NEW', max_length=10)),
                ('note', models.TextField(blank=True, null=True)),
                ('discount_type', models.CharField(blank=True, choices=[('PERCENT', 'Percent'), ('AMOUNT', 'Amount')], max_length=10, null=True)),
                ('discount_value', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('discount_updated_at', models.DateTimeField(blank=True, null=True)),
                ('discount_updated_by', models.CharField(blank=True, max_length=64, null=True)),
                ('payment_status', models.CharField(choices=[('UNPAID', 'Unpaid'), ('PARTIALLY_PAID', 'Partially paid'), ('PAID', 'Paid')], default='UNPAID', max_length=20)),
                ('billing_status', models.CharField(choices=[('OPEN', 'Open'), ('BILL_REQUESTED', 'Bill requested'), ('PAID', 'Paid')], default='OPEN', max_length=20)),
                ('bill_requested_at', models.DateTimeField(blank=True, null=True)),
                ('bill_requested_by', models.CharField(blank=True, max_length=64, null=True)),
                ('payment_confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('payment_confirmed_by', models.CharField(blank=True, max_length=64, null=True)),
                ('order_closed_at', models.DateTimeField(blank=True, null=True)),
                ('order_closed_by', models.CharField(blank=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('linked_tables', models.ManyToManyField(blank=True, related_name='linked_orders', to='floor.table')),
                ('table', models.ForeignKey(on_delete=django.db.models.deletion.RESTRICT, related_name='orders', to='floor.table')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='orders', to='floor.tenant')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['tenant', 'status'], name='floor_order_tenant_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('variant_id', models.CharField(blank=True, max_length=64, null=True)),
                ('modifier_option_ids', models.JSONField(blank=True, default=list)),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('quantity', models.PositiveIntegerField()),
                ('note', models.TextField(blank=True, default='')),
                ('status', models.CharField(choices=[('NEW', 'New'), ('IN_PREPARATION', 'In preparation'), ('READY', 'Ready'), ('SERVED', 'Served'), ('CANCELED', 'Canceled'), ('CLOSED', 'Closed')], default='NEW', max_length=20)),
                ('is_complimentary', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('menu_item', models.ForeignKey(on_delete=django.db.models.deletion.RESTRICT, related_name='order_items', to='floor.menuitem')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='floor.order')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
    ]
