from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ServiceDefinition',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('time', models.TimeField(help_text='Time of day the service starts')),
                ('category', models.CharField(choices=[('RECURRING', 'Recurring'), ('ONETIME_ONEDAY', 'One-time, one day'), ('ONETIME_MULTIDAY', 'One-time, multiple days'), ('FREQUENT_MULTIDAY', 'Frequent, multiple days')], default='RECURRING', max_length=20)),
                ('frequency', models.CharField(choices=[('NONE', 'None'), ('DAILY', 'Daily'), ('WEEKLY', 'Weekly'), ('MONTHLY', 'Monthly'), ('EVERY_2_MONTHS', 'Every 2 Months'), ('QUARTERLY', 'Quarterly'), ('EVERY_4_MONTHS', 'Every 4 Months'), ('EVERY_6_MONTHS', 'Every 6 Months'), ('YEARLY', 'Yearly')], default='WEEKLY', max_length=20)),
                ('ordinal', models.CharField(choices=[('NEXT', 'Next'), ('FIRST', 'First'), ('SECOND', 'Second'), ('THIRD', 'Third'), ('FOURTH', 'Fourth'), ('LAST', 'Last')], default='NEXT', help_text='Only meaningful for monthly or longer frequencies', max_length=10)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name', 'time'],
                'indexes': [
                    models.Index(fields=['is_active'], name='pickups_ser_is_acti_5b1c2e_idx'),
                    models.Index(fields=['start_date', 'end_date'], name='pickups_ser_start_d_8e4a1f_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PickupSeries',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name_plural': 'pickup series',
            },
        ),
        migrations.CreateModel(
            name='ServiceWeekday',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('day_of_week', models.IntegerField(choices=[(0, 'Sunday'), (1, 'Monday'), (2, 'Tuesday'), (3, 'Wednesday'), (4, 'Thursday'), (5, 'Friday'), (6, 'Saturday')])),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='weekdays', to='pickups.servicedefinition')),
            ],
            options={
                'ordering': ['day_of_week'],
                'constraints': [
                    models.UniqueConstraint(fields=('service', 'day_of_week'), name='unique_service_weekday'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Address',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('street', models.CharField(max_length=255)),
                ('city', models.CharField(max_length=100)),
                ('province', models.CharField(max_length=100)),
                ('postal_code', models.CharField(max_length=20)),
                ('country', models.CharField(default='Canada', max_length=100)),
                ('is_default', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='addresses', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'addresses',
            },
        ),
        migrations.CreateModel(
            name='PickupRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('request_date', models.DateField()),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACCEPTED', 'Accepted'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='PENDING', max_length=20)),
                ('is_pick_up', models.BooleanField(default=True)),
                ('is_drop_off', models.BooleanField(default=False)),
                ('is_group_ride', models.BooleanField(default=False)),
                ('number_of_group', models.PositiveIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('address', models.ForeignKey(on_delete=django.db.models.deletion.RESTRICT, related_name='requests', to='pickups.address')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_pickups', to=settings.AUTH_USER_MODEL)),
                ('series', models.ForeignKey(blank=True, help_text='Series this request belongs to (null for one-off requests)', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='requests', to='pickups.pickupseries')),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='requests', to='pickups.servicedefinition')),
                ('service_weekday', models.ForeignKey(on_delete=django.db.models.deletion.RESTRICT, related_name='requests', to='pickups.serviceweekday')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pickup_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['request_date', 'id'],
                'indexes': [
                    models.Index(fields=['user', 'service', 'request_date'], name='pickups_pic_user_id_3f9d2a_idx'),
                    models.Index(fields=['series', 'request_date'], name='pickups_pic_series__7c1e4b_idx'),
                    models.Index(fields=['status'], name='pickups_pic_status_a2d6e9_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'CANCELLED'), _negated=True), fields=('user', 'service', 'request_date'), name='unique_active_request_per_day'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AnalyticsEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(max_length=100)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='analytics_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['event_type', 'created_at'], name='pickups_ana_event_t_4b8f0c_idx'),
                ],
            },
        ),
    ]
