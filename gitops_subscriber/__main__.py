"""Run the gitops-subscriber command line tool."""

from gitops_subscriber.tool.subscriber import main

if __name__ == "__main__":
    main()
