"""Local RHEL test VM provisioning over libvirt."""
