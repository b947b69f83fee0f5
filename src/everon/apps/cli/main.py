# src/everon/apps/cli/main.py
import typer

from everon.apps.cli.commands import api, bot, link, registry

app = typer.Typer(help="EverOn registration bot", no_args_is_help=True)

app.command("serve")(api.serve)
app.command("handle")(bot.handle)
app.command("provision")(registry.provision)
app.command("hash")(registry.hash_)
app.command("token")(link.token)
app.command("verify")(link.verify)


if __name__ == "__main__":
    app()
