"""Keep Cloudflare DNS records pointed at the host's current public IP."""

__version__ = "0.1.0"
