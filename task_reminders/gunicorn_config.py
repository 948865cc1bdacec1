# Gunicorn configuration file
# https://docs.gunicorn.org/en/stable/configure.html#configuration-file
#
#   gunicorn -c task_reminders/gunicorn_config.py

wsgi_app = "task_reminders.webhook_server:create_app()"

# Server socket
bind = "0.0.0.0:5000"
backlog = 2048

# The run guard lives in process memory: keep a single worker, use threads.
workers = 1
worker_class = "gthread"
threads = 4
timeout = 600
keepalive = 2

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "info"

# Process naming
proc_name = "task_reminders_webhook"
