from codesigma.cli.main import cli

cli()
