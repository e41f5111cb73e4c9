"""web/ -- Server-rendered HTML routes and Jinja2 templates."""
