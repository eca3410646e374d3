import sys

from invoke import run, task


class g:
    test_success = False


@task
def test(ctx):
    test_cmd = [
        "pytest",  # Test command
        "--cov-report term-missing",  # Print only uncovered lines to stdout
        "--cov formtree",  # Test only this package
    ]

    # Test in this directory
    test_cmd.append("tests")

    res = run(" ".join(test_cmd), pty=False, warn=True)
    g.test_success = res.ok


@task
def fuzz(ctx, target="form", runs=100000):
    run(f"python fuzz/fuzz_{target}.py -runs={runs}", pty=False)


@task(pre=[test])
def deploy(ctx):
    if not g.test_success:
        print("Tests must pass before deploying!", file=sys.stderr)
        return

    # Build source distribution and wheel
    run("python -m build")

    # Upload distributions from last step to pypi
    run("twine upload dist/*")
