import pulumi
from awstopology import TopologyError, load_config, synthesize
from awstopology.deploy import ManifestDeployer


def main():
    # Load YAML configuration
    config = load_config("config.yaml")

    try:
        manifest = synthesize(config)
    except TopologyError as e:
        pulumi.log.error(f"Failed to synthesize topology: {e}")
        raise

    deployer = ManifestDeployer(manifest)
    try:
        deployer.deploy()
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise

    deployer.export_outputs()


if __name__ == "__main__":
    main()
