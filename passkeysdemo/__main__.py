from . import PassKeysDemoApplication


def main():
	app = PassKeysDemoApplication()
	app.run()


if __name__ == "__main__":
	main()
