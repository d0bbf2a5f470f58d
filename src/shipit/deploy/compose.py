"""Compose override generation for a release.

The override adds routing labels, the health-check directive, the shared
env file and network attachment to the application's own compose file, and
swaps build directives for image tags when images were built locally.
"""

from __future__ import annotations

from dataclasses import dataclass

from jinja2 import Environment, StrictUndefined

from shipit.deploy.context import DeployContext

OVERRIDE_FILE = "docker-compose.override.yml"
TRAEFIK_NETWORK = "traefik"

# Jinja2 template for docker-compose.override.yml
OVERRIDE_TEMPLATE = """\
# Generated by shipit for {{ app_name }} release {{ release_id }}
services:
  {{ web_service }}:
{% if web_image %}
    image: {{ web_image | tojson }}
    pull_policy: never
{% endif %}
    restart: unless-stopped
    env_file:
      - path: {{ shared_env | tojson }}
        required: false
{% if environment %}
    environment:
{% for key, value in environment.items() %}
      {{ key }}: {{ value | tojson }}
{% endfor %}
{% endif %}
    healthcheck:
      test: ["CMD-SHELL", {{ health_test | tojson }}]
      interval: {{ health_interval }}
      retries: {{ health_retries }}
{% if traefik %}
    labels:
      - "traefik.enable=true"
      - "traefik.docker.network={{ network }}"
      - "traefik.http.routers.{{ app_name }}.rule=Host(`{{ traefik.domain }}`)"
{% if traefik.tls %}
      - "traefik.http.routers.{{ app_name }}.entrypoints=websecure"
      - "traefik.http.routers.{{ app_name }}.tls=true"
      - "traefik.http.routers.{{ app_name }}.tls.certresolver=letsencrypt"
{% else %}
      - "traefik.http.routers.{{ app_name }}.entrypoints=web"
{% endif %}
      - "traefik.http.services.{{ app_name }}.loadbalancer.server.port={{ port }}"
    networks:
      - default
      - {{ network }}
{% endif %}
{% for service in image_services %}
  {{ service.name }}:
    image: {{ service.image | tojson }}
    pull_policy: never
{% endfor %}
{% if traefik %}
networks:
  {{ network }}:
    external: true
{% endif %}
"""


@dataclass
class ImageService:
    """A compose service whose image was built locally."""

    name: str
    image: str


def format_duration(seconds: float) -> str:
    """Format seconds as a compose duration.

    Example:
        >>> format_duration(2.0)
        '2s'
        >>> format_duration(1.5)
        '1.5s'
    """
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{seconds}s"


def render_override(
    context: DeployContext,
    built_services: list[ImageService] | None = None,
) -> str:
    """Render the compose override for a release.

    Args:
        context: Deploy context of the stage
        built_services: Locally built services with their transferred tags

    Returns:
        YAML content of docker-compose.override.yml
    """
    health = context.config.deploy.health_check
    web_service = context.web_service
    built_services = built_services or []

    web_image = next(
        (svc.image for svc in built_services if svc.name == web_service), None
    )
    other_services = [svc for svc in built_services if svc.name != web_service]

    health_test = health.cmd or (
        f"curl -f http://localhost:{health.port}{health.path} || exit 1"
    )

    env = Environment(
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
        autoescape=False,  # noqa: S701  # nosec B701 - YAML output, not HTML
    )
    template = env.from_string(OVERRIDE_TEMPLATE)
    return template.render(
        app_name=context.config.app.name,
        release_id=context.release_id,
        web_service=web_service,
        web_image=web_image,
        shared_env=context.layout.shared_env,
        environment=context.stage.env,
        health_test=health_test,
        health_interval=format_duration(health.interval),
        health_retries=health.retries,
        traefik=context.stage.traefik,
        network=TRAEFIK_NETWORK,
        port=health.port,
        image_services=other_services,
    )
