import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('members', '0001_initial'),
        ('schedule', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('session_date', models.DateField()),
                ('session_start_time', models.TimeField()),
                ('booking_type', models.CharField(choices=[('drop_in', 'Drop-in'), ('membership', 'Membership'), ('trial', 'Trial')], default='drop_in', max_length=20)),
                ('channel', models.CharField(choices=[('kiosk', 'Kiosk'), ('admin', 'Admin'), ('online', 'Online')], default='kiosk', max_length=10)),
                ('status', models.CharField(choices=[('confirmed', 'Confirmed'), ('cancelled', 'Cancelled'), ('attended', 'Attended'), ('no_show', 'No Show')], default='confirmed', max_length=20)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('refunded', 'Refunded'), ('waived', 'Waived')], default='pending', max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, help_text='Drop-in price of the class when the booking was made', max_digits=8)),
                ('payment_intent_id', models.CharField(blank=True, max_length=255)),
                ('payment_event_at', models.DateTimeField(blank=True, help_text='Creation time of the last payment event applied', null=True)),
                ('cash_requested_at', models.DateTimeField(blank=True, help_text='Set while the member is paying cash at the desk', null=True)),
                ('checked_in_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='members.member')),
                ('gym_class', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='schedule.gymclass')),
            ],
            options={
                'ordering': ['-session_date', 'session_start_time'],
                'indexes': [
                    models.Index(fields=['gym_class', 'session_date', 'session_start_time'], name='booking_slot_idx'),
                    models.Index(fields=['session_date'], name='booking_session_date_idx'),
                ],
            },
        ),
    ]
