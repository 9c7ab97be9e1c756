"""
Management command to deliver queued async events (outbox worker).
"""
import time

from django.core.management.base import BaseCommand

from procurement import conf
from procurement.infra.worker import OutboxProcessor


class Command(BaseCommand):
    help = 'Deliver pending outbox events to their listeners'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum number of events to process in one run',
        )
        parser.add_argument(
            '--queue',
            default=None,
            help='Only process events routed to this queue (events-high, events-medium, events-low)',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Run in loop (for production)',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=3,
            help='Interval between loops in seconds',
        )

    def handle(self, *args, **options):
        limit = options['limit']
        queue = options['queue']
        interval = options['interval']

        processor = OutboxProcessor(conf.build_dispatcher())

        if not options['loop']:
            processed = processor.process_outbox_events(limit=limit, queue=queue)
            self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
            return

        self.stdout.write(f'Starting outbox worker in loop mode (interval: {interval}s)')
        while True:
            try:
                processed = processor.process_outbox_events(limit=limit, queue=queue)
                if processed > 0:
                    self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
                time.sleep(interval)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING('Stopped by user'))
                break
